"""Tools available to the agent and the gates every call passes through."""
