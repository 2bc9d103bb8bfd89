__version__ = "0.4.2"
__description__ = "sarest : side loaded REST resources for SQLAlchemy models"
