"""Portfolio career assistant: visitor classification, prompt composition,
completion gateway, conversation session and Slack notification relay."""
