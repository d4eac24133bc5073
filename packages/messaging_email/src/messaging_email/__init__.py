"""E-mail delivery: providers, ticket templates and the ticket e-mail sender."""
