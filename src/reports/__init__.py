"""Producer of the projects and contributors artifacts."""
