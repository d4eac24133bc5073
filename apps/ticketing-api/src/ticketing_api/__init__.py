"""HTTP API for events, registrations, tickets and WhatsApp campaigns."""
