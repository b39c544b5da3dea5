from . import container_engine, instance_config, health, browser, instance_manager

__all__ = ["container_engine", "instance_config", "health", "browser", "instance_manager"]
