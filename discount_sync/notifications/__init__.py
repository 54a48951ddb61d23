"""Run notifications: message templates, transports and the best-effort dispatcher."""
