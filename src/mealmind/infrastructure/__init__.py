"""Infrastructure: retry engine, HTTP, configuration loading and LLM providers"""
