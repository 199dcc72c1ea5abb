"""Real-time chat relay for the study room page."""
