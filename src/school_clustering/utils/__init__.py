from .logger import run_log_path, setup_logging

__all__ = ['run_log_path', 'setup_logging']
