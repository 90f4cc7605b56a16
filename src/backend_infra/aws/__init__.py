"""
AWS helpers: client management, stack deployment and pipeline status.
"""
