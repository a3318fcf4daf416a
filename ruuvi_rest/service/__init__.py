"""Process lifecycle wiring for the publishing agent."""
