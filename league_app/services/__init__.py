"""
Domain services used by the importer and its surfaces.
"""
