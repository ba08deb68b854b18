"""
Services module for the FlyFF item editor
Locating, cross-referencing, editing and saving the item resource files
"""

from .resource_locator import DirectoryResolver, LocatedResources, ResourceLocator, ResourceResolver
from .resource_session import EditRecord, LoadedFile, ResourceContext, ResourceSession
from .resource_writer import ResourceWriter, SaveAttempt, SaveResult, safe_file_name

__all__ = [
    'DirectoryResolver', 'LocatedResources', 'ResourceLocator', 'ResourceResolver',
    'EditRecord', 'LoadedFile', 'ResourceContext', 'ResourceSession',
    'ResourceWriter', 'SaveAttempt', 'SaveResult', 'safe_file_name',
]
