"""
Storage modules: log file scanning and cached report persistence.
"""
