"""Generation workflow: request building, orchestration, polling and history."""
