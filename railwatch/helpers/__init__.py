"""Pure helper functions shared by services and API endpoints."""
