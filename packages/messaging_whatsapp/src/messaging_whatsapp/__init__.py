"""WhatsApp delivery: providers, blast campaigns, retries and ticket sends."""
