"""Redis Streams consumer that runs WhatsApp blast and retry jobs."""
