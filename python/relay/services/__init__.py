"""Service layer: business logic shared by routes and scripts."""
