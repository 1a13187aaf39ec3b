"""LLM clients. Import ``market_agent.llm.gemini_client`` directly; it needs an API key."""
