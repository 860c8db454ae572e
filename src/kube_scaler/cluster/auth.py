"""Bearer token resolution."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from kube_scaler.core.config import DEFAULT_TOKEN_PATH

logger = logging.getLogger(__name__)


class CredentialResolver:
    """Derives the token a run authenticates with.

    A token supplied in the step configuration wins. Otherwise the service
    account token mounted into the pod running the pipeline is used.
    """
    
    def __init__(self, token_path: Optional[str] = None):
        self.token_path = Path(token_path or DEFAULT_TOKEN_PATH)
    
    def derive_auth(self, provided_token: str) -> str:
        if provided_token:
            return provided_token
        
        try:
            token = self.token_path.read_text().strip()
        except OSError as e:
            logger.warning(f"No token configured and {self.token_path} is unreadable: {e}")
            return ""
        
        logger.info(f"Using service account token from {self.token_path}")
        return token
