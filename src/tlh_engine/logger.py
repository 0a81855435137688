import logging
import sys
import json
import os
import gzip
import shutil
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

from rebalancer_config import LoggingConfig
from .context import get_current_run

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename', 'module',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info', 'exc_text', 'stack_info',
    'message', 'taskName', 'portfolio_id', 'method',
}

class CompressingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """TimedRotatingFileHandler that compresses rotated files"""

    def doRollover(self):
        super().doRollover()

        dir_name, base_name = os.path.split(self.baseFilename)

        try:
            for file_name in os.listdir(dir_name):
                if file_name.startswith(base_name) and not file_name.endswith('.gz') and file_name != base_name:
                    full_path = os.path.join(dir_name, file_name)
                    with open(full_path, 'rb') as f_in:
                        with gzip.open(f'{full_path}.gz', 'wb') as f_out:
                            shutil.copyfileobj(f_in, f_out)
                    os.remove(full_path)
        except OSError as e:
            # Compression failure must not break the rollover itself
            print(f"Error during log compression: {e}", file=sys.stderr)

class RunContextFilter(logging.Filter):
    """Attach the current rebalance run to every record"""

    def filter(self, record):
        run = get_current_run()
        if run is not None:
            if not hasattr(record, 'portfolio_id'):
                record.portfolio_id = run.portfolio_id
            if not hasattr(record, 'method'):
                record.method = run.method
        return True

class StructuredFormatter(logging.Formatter):
    """Formatter for text or JSON lines with run context"""

    def __init__(self, output_format: str = 'text'):
        super().__init__()
        self.output_format = output_format

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if hasattr(record, 'portfolio_id'):
            log_data['portfolio_id'] = record.portfolio_id
        if hasattr(record, 'method'):
            log_data['method'] = record.method

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value.isoformat() if isinstance(value, datetime) else value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if self.output_format == 'json':
            return json.dumps(log_data, default=str)

        base_msg = f"{log_data['timestamp']} - {log_data['logger']} - {log_data['level']} - {log_data['message']}"
        if 'portfolio_id' in log_data:
            base_msg += f" [portfolio_id={log_data['portfolio_id']}]"
        if 'method' in log_data:
            base_msg += f" [method={log_data['method']}]"
        if 'exception' in log_data:
            base_msg += f"\n{log_data['exception']}"
        return base_msg

def configure_root_logger(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Configure the root logger with structured formatting and run context"""
    config = config or LoggingConfig()
    root_logger = logging.getLogger()

    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, config.level))

    formatter = StructuredFormatter(config.format)
    context_filter = RunContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    if config.file_path:
        log_dir = os.path.dirname(config.file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = CompressingTimedRotatingFileHandler(
            filename=config.file_path,
            when='midnight',
            interval=1,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        root_logger.addHandler(file_handler)

    return root_logger
