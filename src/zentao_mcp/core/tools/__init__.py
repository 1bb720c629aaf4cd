"""Domain operations over an authenticated SessionManager."""
