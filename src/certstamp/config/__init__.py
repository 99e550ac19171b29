"""
Configuration support: dataclasses populated from YAML settings, and the
logging configuration shared by all entry points.
"""
