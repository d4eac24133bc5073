"""WhatsApp command-line tools."""
