"""HTTP routers for the calendar API."""
