"""
Structured Production Logging for the checkout flow
Provides a structured log sink and lightweight metrics so best-effort
side effects (audit writes, provider batches) stay observable
"""

import logging
import time
import threading
from typing import Dict, List, Optional, Any, Callable
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum

# Register custom AUDIT log level (between INFO and WARNING)
AUDIT_LEVEL = 25
logging.addLevelName(AUDIT_LEVEL, 'AUDIT')


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    AUDIT = "AUDIT"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MetricType(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class LogEntry:
    """Structured log entry"""
    timestamp: str
    level: LogLevel
    component: str
    message: str
    context: Dict[str, Any]
    trace_id: Optional[str] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['level'] = self.level.value
        return data


@dataclass
class Metric:
    """Production metric with metadata"""
    name: str
    value: float
    metric_type: MetricType
    timestamp: float
    component: str
    tags: Dict[str, str] = field(default_factory=dict)


_LEVEL_NUMBERS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.AUDIT: AUDIT_LEVEL,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


class ProductionLogger:
    """Production logger with structured entries and metric buffering"""

    def __init__(self, max_buffered_metrics: int = 1000):
        self.max_buffered_metrics = max_buffered_metrics
        self.metrics_buffer: List[Metric] = []
        self.metrics_lock = threading.Lock()
        self.log_handlers: List[Callable[[LogEntry], None]] = []
        self.metric_handlers: List[Callable[[Metric], None]] = []

    def log_structured(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: Optional[Dict] = None,
        trace_id: Optional[str] = None,
        user_id: Optional[str] = None,
        order_id: Optional[str] = None
    ) -> LogEntry:
        """Log structured message"""
        log_entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            context=context or {},
            trace_id=trace_id,
            user_id=user_id,
            order_id=order_id
        )

        # Log using standard logging
        logger = logging.getLogger(component)
        extra = {
            'component': component,
            'trace_id': trace_id,
            'user_id': user_id,
            'order_id': order_id,
            'context': context or {}
        }
        logger.log(_LEVEL_NUMBERS[level], message, extra=extra)

        # Call custom handlers
        for handler in self.log_handlers:
            try:
                handler(log_entry)
            except Exception as e:
                logging.error(f"❌ Log handler error: {e}")

        return log_entry

    def record_metric(
        self,
        name: str,
        value: float,
        metric_type: MetricType,
        component: str,
        tags: Optional[Dict[str, str]] = None
    ) -> Metric:
        """Record production metric"""
        metric = Metric(
            name=name,
            value=value,
            metric_type=metric_type,
            timestamp=time.time(),
            component=component,
            tags=tags or {}
        )

        with self.metrics_lock:
            self.metrics_buffer.append(metric)
            # Oldest metrics are dropped once the buffer is full
            if len(self.metrics_buffer) > self.max_buffered_metrics:
                del self.metrics_buffer[:len(self.metrics_buffer) - self.max_buffered_metrics]

        for handler in self.metric_handlers:
            try:
                handler(metric)
            except Exception as e:
                logging.error(f"❌ Metric handler error: {e}")

        return metric

    def drain_metrics(self) -> List[Metric]:
        """Return and clear buffered metrics"""
        with self.metrics_lock:
            batch = self.metrics_buffer.copy()
            self.metrics_buffer.clear()
        return batch

    def add_log_handler(self, handler: Callable[[LogEntry], None]):
        """Add custom log handler"""
        self.log_handlers.append(handler)

    def remove_log_handler(self, handler: Callable[[LogEntry], None]):
        if handler in self.log_handlers:
            self.log_handlers.remove(handler)

    def add_metric_handler(self, handler: Callable[[Metric], None]):
        """Add custom metric handler"""
        self.metric_handlers.append(handler)


# Global production logger instance
_production_logger: Optional[ProductionLogger] = None


def get_production_logger() -> ProductionLogger:
    """Get global production logger instance"""
    global _production_logger
    if _production_logger is None:
        _production_logger = ProductionLogger()
    return _production_logger


# Convenience functions for common logging patterns
def log_business_event(component: str, event: str, details: Dict, user_id: Optional[str] = None, order_id: Optional[str] = None) -> LogEntry:
    """Log business event with structured context"""
    return get_production_logger().log_structured(
        LogLevel.AUDIT,
        component,
        f"Business event: {event}",
        context=details,
        user_id=user_id,
        order_id=order_id
    )


def log_performance_metric(component: str, operation: str, duration_ms: float, success: bool = True):
    """Log performance metric"""
    logger = get_production_logger()
    logger.record_metric(
        f"{operation}_duration_ms",
        duration_ms,
        MetricType.HISTOGRAM,
        component,
        {'operation': operation, 'success': str(success)}
    )
    logger.record_metric(
        f"{operation}_success_rate",
        1.0 if success else 0.0,
        MetricType.GAUGE,
        component,
        {'operation': operation}
    )


def log_error_with_context(component: str, error: BaseException, context: Dict, user_id: Optional[str] = None, order_id: Optional[str] = None) -> LogEntry:
    """Log error with full context"""
    logger = get_production_logger()
    error_context = {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **context
    }

    entry = logger.log_structured(
        LogLevel.ERROR,
        component,
        f"Error occurred: {error}",
        context=error_context,
        user_id=user_id,
        order_id=order_id
    )

    logger.record_metric(
        'error_count',
        1.0,
        MetricType.COUNTER,
        component,
        {'error_type': type(error).__name__}
    )
    return entry
