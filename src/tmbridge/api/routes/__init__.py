"""
tmbridge API Routes

FHIR terminology route modules.
"""

from tmbridge.api.routes.terminology import router as terminology_router
from tmbridge.api.routes.codesystems import router as codesystems_router
from tmbridge.api.routes.conceptmaps import router as conceptmaps_router
from tmbridge.api.routes.valuesets import router as valuesets_router

__all__ = [
    "terminology_router",
    "codesystems_router",
    "conceptmaps_router",
    "valuesets_router",
]
