"""
Application Constants Configuration
"""

from typing import Dict, List


# Generation modes understood by the generation collaborator
GENERATION_MODES: List[str] = [
    "manual",
    "automatic",
    "storyboard_enhancer",
    "angles",
    "background_grid",
]

# Display model names -> generation collaborator model ids
MODEL_ALIASES: Dict[str, str] = {
    "Gemini 3 Pro": "gemini-3-pro-image-preview",
    "Google Nanobanana Pro": "gemini-3-pro-image-preview",
    "Gemini 2.0 Flash": "gemini-2.0-flash-exp",
    "Google Nanobanana": "gemini-2.0-flash-exp",
}
DEFAULT_MODEL_ID: str = "gemini-2.0-flash-exp"

SUPPORTED_ASPECT_RATIOS: List[str] = ["16:9", "9:16", "1:1", "4:3", "3:4", "21:9"]
SUPPORTED_RESOLUTIONS: List[str] = ["1K", "2K", "4K"]
DEFAULT_RESOLUTION: str = "1K"

# Optimistic jobs
TEMP_JOB_PREFIX: str = "temp-"
PENDING_PROMPT_PLACEHOLDER: str = "Processing..."

# Shot naming
SHOT_NAME_TEMPLATE: str = "Shot_{number}"

# Notifications
NOTIFICATION_INBOX_LIMIT: int = 20
SHOT_LINK_TEMPLATE: str = "/shot/{shot_id}"

# Rate Limiting Configuration
RATE_LIMIT_WINDOW_S: int = 60
