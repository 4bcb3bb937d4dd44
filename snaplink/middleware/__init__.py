"""HTTP middleware for the URL shortener API."""
