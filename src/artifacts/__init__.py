"""
Versioned artifact store utilities.
"""

from .uploader import ArtifactUploader
from .versions import ArtifactVersion, ArtifactVersionLister

__all__ = ["ArtifactUploader", "ArtifactVersion", "ArtifactVersionLister"]
