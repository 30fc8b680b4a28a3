"""
Main package initialization.
Sets up logging and other app-wide configurations.
"""
from lifelog.core.logging import setup_logging

# Initialize logging at package level
logger = setup_logging()
logger.debug("Initializing Lifelog Achievements application")
