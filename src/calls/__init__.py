"""Call session state and orchestration."""
