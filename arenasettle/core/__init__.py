"""
arenasettle core: models, configuration, errors, keys and logging.
"""
