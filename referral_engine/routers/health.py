import logging
from typing import Dict

from fastapi import APIRouter

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
def health() -> Dict[str, str]:
    logger.debug("Health check requested")
    return {"status": "ok"}
