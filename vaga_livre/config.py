# vaga_livre/config.py

import os


class Config:
    # YAML data directory
    DATA_DIR = os.getenv("VAGA_LIVRE_DATA_DIR", "data")

    # CORS
    CORS_ORIGIN = os.getenv("VAGA_LIVRE_CORS_ORIGIN", "*")

    # Flask
    DEBUG = os.getenv("VAGA_LIVRE_DEBUG", "false").lower() in ("true", "1", "t")
