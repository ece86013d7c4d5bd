"""Blog posts: CRUD, views, likes and statistics."""
