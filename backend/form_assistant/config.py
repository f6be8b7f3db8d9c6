"""
Configuration management for the Government Form Assistant.
Loads inference, translation, AWS and API settings from environment variables.
"""
import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Configuration class for collaborator credentials and service settings."""

    # Model inference (OpenAI-compatible chat completions API)
    INFERENCE_API_KEY: Optional[str] = os.getenv('INFERENCE_API_KEY') or os.getenv('OPENAI_API_KEY')
    INFERENCE_API_BASE: str = os.getenv('INFERENCE_API_BASE', 'https://api.openai.com/v1')
    INFERENCE_MODEL: str = os.getenv('INFERENCE_MODEL', 'gpt-4o-mini')
    INFERENCE_TIMEOUT: int = int(os.getenv('INFERENCE_TIMEOUT', '30'))
    TRANSLATION_TIMEOUT: int = int(os.getenv('TRANSLATION_TIMEOUT', '10'))

    # AWS Credentials (document text extraction)
    AWS_PROFILE: Optional[str] = os.getenv('AWS_PROFILE')
    AWS_ACCESS_KEY_ID: Optional[str] = os.getenv('AWS_ACCESS_KEY_ID')
    AWS_SECRET_ACCESS_KEY: Optional[str] = os.getenv('AWS_SECRET_ACCESS_KEY')
    AWS_SESSION_TOKEN: Optional[str] = os.getenv('AWS_SESSION_TOKEN')
    AWS_REGION: str = os.getenv('AWS_REGION', 'ap-south-1')

    # Rate Limiting
    MAX_TOTAL_CALLS: int = int(os.getenv('MAX_TOTAL_CALLS', '500'))
    ENABLE_RATE_LIMITING: bool = os.getenv('ENABLE_RATE_LIMITING', 'true').lower() == 'true'

    # Sessions
    DEFAULT_LANGUAGE: str = os.getenv('DEFAULT_LANGUAGE', 'en')

    # Uploads
    MAX_UPLOAD_BYTES: int = int(os.getenv('MAX_UPLOAD_BYTES', str(10 * 1024 * 1024)))
    ALLOWED_EXTENSIONS: list = os.getenv('ALLOWED_EXTENSIONS', '.pdf,.png,.jpg,.jpeg,.tiff').split(',')

    # Rendering
    OUTPUT_DIR: str = os.getenv('OUTPUT_DIR', 'output/documents')
    FONT_PATH: Optional[str] = os.getenv('FONT_PATH')

    # API Settings
    API_HOST: str = os.getenv('API_HOST', '0.0.0.0')
    API_PORT: int = int(os.getenv('API_PORT', '8000'))
    CORS_ORIGINS: list = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')

    @classmethod
    def validate(cls) -> bool:
        """
        Validate that required configuration is present.

        A missing inference key is not an error: structure inference then
        always resolves to the fallback form.
        """
        if cls.AWS_ACCESS_KEY_ID and not cls.AWS_SECRET_ACCESS_KEY:
            raise ValueError(
                "AWS_ACCESS_KEY_ID is set but AWS_SECRET_ACCESS_KEY is missing."
            )

        # Check if temporary credentials (ASIA) are used without session token
        if cls.AWS_ACCESS_KEY_ID and cls.AWS_ACCESS_KEY_ID.startswith('ASIA'):
            if not cls.AWS_SESSION_TOKEN:
                raise ValueError(
                    "Temporary credentials (ASIA) detected but AWS_SESSION_TOKEN is not set.\n"
                    "Temporary credentials require a session token to work."
                )

        if cls.INFERENCE_TIMEOUT <= 0 or cls.TRANSLATION_TIMEOUT <= 0:
            raise ValueError("INFERENCE_TIMEOUT and TRANSLATION_TIMEOUT must be positive.")

        if cls.MAX_UPLOAD_BYTES <= 0:
            raise ValueError("MAX_UPLOAD_BYTES must be positive.")

        from form_assistant.services.form_structure.languages import is_supported
        if not is_supported(cls.DEFAULT_LANGUAGE):
            raise ValueError(f"DEFAULT_LANGUAGE '{cls.DEFAULT_LANGUAGE}' is not a supported language code.")
        return True

    @classmethod
    def allowed_extensions(cls) -> set:
        """Normalized set of accepted upload extensions (lower-case, with dot)."""
        normalized = set()
        for ext in cls.ALLOWED_EXTENSIONS:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.add(ext if ext.startswith('.') else f'.{ext}')
        return normalized

    @classmethod
    def get_boto3_config(cls) -> dict:
        """
        Keyword arguments for building the Textract client.

        A named profile wins over explicit keys; with neither, boto3 falls
        back to its own credential chain.
        """
        if cls.AWS_PROFILE:
            return {'profile_name': cls.AWS_PROFILE, 'region_name': cls.AWS_REGION}

        keys = {
            'aws_access_key_id': cls.AWS_ACCESS_KEY_ID,
            'aws_secret_access_key': cls.AWS_SECRET_ACCESS_KEY,
            'aws_session_token': cls.AWS_SESSION_TOKEN,
        }
        if not (cls.AWS_ACCESS_KEY_ID and cls.AWS_SECRET_ACCESS_KEY):
            keys = {}
        return {'region_name': cls.AWS_REGION, **{k: v for k, v in keys.items() if v}}
