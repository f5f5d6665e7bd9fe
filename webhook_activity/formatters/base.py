"""Base formatter for activity stream output."""

from abc import ABC, abstractmethod
from typing import Optional, TextIO

from webhook_activity.models import ActivityEvent, ConnectionStatus


class BaseFormatter(ABC):
    """Abstract base class for output formatters."""
    
    def __init__(self, output_file: Optional[TextIO] = None):
        """Initialize formatter with optional output file."""
        self.output_file = output_file
    
    @abstractmethod
    def format_header(self, stream_url: str, **kwargs) -> str:
        """
        Format header information.
        
        Args:
            stream_url: Endpoint being watched (credential masked)
            **kwargs: Additional header parameters
            
        Returns:
            Formatted header string
        """
        pass
    
    @abstractmethod
    def format_event(self, event: ActivityEvent) -> str:
        """
        Format a single activity event.
        
        Args:
            event: Decoded activity event
            
        Returns:
            Formatted string
        """
        pass
    
    @abstractmethod
    def format_status(self, status: ConnectionStatus, **kwargs) -> str:
        """
        Format a connection status change.
        
        Args:
            status: New connection status
            **kwargs: Extra context such as history length
            
        Returns:
            Formatted string
        """
        pass
    
    @abstractmethod
    def format_error(self, error: str, **kwargs) -> str:
        """Format an error message."""
        pass
    
    def output(self, text: str) -> None:
        """
        Output text to file or stdout.
        
        Args:
            text: Text to output
        """
        if self.output_file:
            self.output_file.write(text)
            self.output_file.flush()
        else:
            print(text, end='')
    
    def close(self) -> None:
        """Close output file if applicable."""
        if self.output_file and hasattr(self.output_file, 'close'):
            self.output_file.close()
