"""JSON API blueprints (registered in create_app)."""
