"""Authentication (session tokens, WeChat OAuth)."""
