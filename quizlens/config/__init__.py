"""Configuration directory for the QuizLens application.

quizlens_config.json (optional) is merged over the defaults in
quizlens.utils.config_loader. The LLM API key is read from the GROQ_API_KEY
environment variable or a local .env file, never from this directory.
"""
