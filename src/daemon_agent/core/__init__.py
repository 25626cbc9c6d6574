"""Turn orchestration: state machine, turn runner, agent loop and subagents."""
