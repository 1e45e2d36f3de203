"""
AI classification backend.

- **classifier.py**: OpenAI-compatible chat completion client that sends the
  report prompt and returns the raw response text.
"""
