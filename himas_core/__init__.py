"""
Himas Hospital workflow core: offline-first sync of the patient and staff
collections, the application state provider, and its collaborators.
"""

__version__ = "2.2.0"
