"""
Custom exception classes for the capture-to-3D service.

This module defines exception classes for the failure modes of each pipeline
stage, each mapped to a specific error code for consistent error handling.
"""

from enum import Enum
from typing import Optional, Dict, Any, List


class ErrorCode(str, Enum):
    """Hierarchical error code system for consistent error handling."""

    # Capture Device Errors (1xxx)
    DEVICE_PERMISSION_DENIED = "DEV_1001"
    DEVICE_NOT_FOUND = "DEV_1002"
    DEVICE_INSECURE_CONTEXT = "DEV_1003"
    DEVICE_NOT_ACTIVE = "DEV_1004"
    DEVICE_CAPTURE_FAILED = "DEV_1005"

    # Validation Errors (2xxx)
    VALIDATION_INVALID_INPUT = "VAL_2001"
    VALIDATION_MISSING_INPUT = "VAL_2002"

    # Pipeline Errors (3xxx)
    PIPELINE_STAGE_BUSY = "PIPE_3001"
    PIPELINE_STALE_RESULT = "PIPE_3002"

    # External Service Errors (5xxx)
    EXT_REMOTE_ERROR = "EXT_5001"
    EXT_NO_IMAGE_RETURNED = "EXT_5002"
    EXT_SERVICE_TIMEOUT = "EXT_5003"
    EXT_SERVICE_UNREACHABLE = "EXT_5004"

    # Viewer Errors (6xxx)
    VIEWER_LIBRARY_UNAVAILABLE = "VIEW_6001"
    VIEWER_ASSET_HAS_NO_SCENE = "VIEW_6002"
    VIEWER_ASSET_DECODE_ERROR = "VIEW_6003"
    VIEWER_ASSET_NOT_INSTALLED = "VIEW_6004"

    # System Errors (9xxx)
    SYS_INTERNAL_ERROR = "SYS_9001"
    SYS_CONFIGURATION_ERROR = "SYS_9002"


class AppException(Exception):
    """Base exception class for all application exceptions."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)


# Capture Device Exceptions

class DeviceException(AppException):
    """Base class for capture-device exceptions."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 409
    ):
        super().__init__(error_code, message, details, status_code=status_code)


class PermissionDeniedException(DeviceException):
    """Raised when the process may not open the capture device."""

    def __init__(self, device: str, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details["device"] = device
        super().__init__(
            ErrorCode.DEVICE_PERMISSION_DENIED,
            "Camera permission denied. Allow camera access for this service.",
            merged_details,
            status_code=403
        )


class DeviceNotFoundException(DeviceException):
    """Raised when no capture device can be opened."""

    def __init__(self, device: str, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details["device"] = device
        super().__init__(
            ErrorCode.DEVICE_NOT_FOUND,
            "No camera found on device.",
            merged_details,
            status_code=404
        )


class InsecureContextException(DeviceException):
    """Raised when the camera is requested from a non-secure origin."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.DEVICE_INSECURE_CONTEXT,
            "Security error: serve over HTTPS or use localhost.",
            details,
            status_code=403
        )


class NoActiveDeviceException(DeviceException):
    """Raised when a frame is requested without an open device session."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.DEVICE_NOT_ACTIVE,
            "Open the camera first.",
            details
        )


class CaptureFailedException(DeviceException):
    """Raised when the device session yields no usable frame."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details["reason"] = reason
        super().__init__(
            ErrorCode.DEVICE_CAPTURE_FAILED,
            f"Capture failed ({reason}).",
            merged_details,
            status_code=500
        )


# Validation Exceptions

class ValidationException(AppException):
    """Base class for validation-related exceptions."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(error_code, message, details, status_code=422)


class MissingInputException(ValidationException):
    """Raised when a stage is triggered before its prerequisite step."""

    def __init__(self, message: str, missing: List[str], details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details["missing"] = missing
        super().__init__(
            ErrorCode.VALIDATION_MISSING_INPUT,
            message,
            merged_details
        )


# Pipeline Exceptions

class StageBusyException(AppException):
    """Raised when a stage is triggered while a previous run is still in flight."""

    def __init__(self, stage: str, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details["stage"] = stage
        super().__init__(
            ErrorCode.PIPELINE_STAGE_BUSY,
            f"Stage '{stage}' is already running. Wait for it to finish.",
            merged_details,
            status_code=409
        )


class StaleResultException(AppException):
    """Raised when a result arrives after a newer capture/enhance cycle started."""

    def __init__(self, stage: str, started_cycle: int, current_cycle: int):
        super().__init__(
            ErrorCode.PIPELINE_STALE_RESULT,
            "A newer image replaced the input of this generation; result discarded.",
            {
                "stage": stage,
                "started_cycle": started_cycle,
                "current_cycle": current_cycle
            },
            status_code=409
        )


# External Service Exceptions

class ExternalServiceException(AppException):
    """Base class for external service-related exceptions."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 502
    ):
        super().__init__(error_code, message, details, status_code=status_code)


class RemoteErrorException(ExternalServiceException):
    """Raised when a remote generation service answers with an error status."""

    def __init__(self, service_name: str, remote_status: Optional[int], details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details.update({
            "service_name": service_name,
            "remote_status": remote_status
        })
        super().__init__(
            ErrorCode.EXT_REMOTE_ERROR,
            f"API error {remote_status}",
            merged_details
        )
        self.remote_status = remote_status


class NoImageReturnedException(ExternalServiceException):
    """Raised when the enhancement response carries no inline image part."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.EXT_NO_IMAGE_RETURNED,
            "No image data returned.",
            details
        )


class ServiceTimeoutException(ExternalServiceException):
    """Raised when external service call times out."""

    def __init__(self, service_name: str, timeout_seconds: float, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details.update({
            "service_name": service_name,
            "timeout_seconds": timeout_seconds
        })
        super().__init__(
            ErrorCode.EXT_SERVICE_TIMEOUT,
            f"Request to {service_name} timed out after {timeout_seconds} seconds",
            merged_details,
            status_code=504
        )


class ServiceUnreachableException(ExternalServiceException):
    """Raised when the transport to an external service fails."""

    def __init__(self, service_name: str, reason: str, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details.update({
            "service_name": service_name,
            "reason": reason
        })
        super().__init__(
            ErrorCode.EXT_SERVICE_UNREACHABLE,
            f"Could not reach {service_name}: {reason}",
            merged_details,
            status_code=503
        )


# Viewer Exceptions

class ViewerException(AppException):
    """Base class for 3D viewer exceptions."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 422
    ):
        super().__init__(error_code, message, details, status_code=status_code)


class LibraryUnavailableException(ViewerException):
    """Raised when no toolkit source could provide the rendering libraries."""

    def __init__(self, attempts: List[Dict[str, str]], details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details["attempts"] = attempts
        super().__init__(
            ErrorCode.VIEWER_LIBRARY_UNAVAILABLE,
            "Could not load 3D libraries from the local copy or the pinned fallback.",
            merged_details,
            status_code=503
        )


class AssetHasNoSceneException(ViewerException):
    """Raised when a decoded asset holds nothing displayable."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.VIEWER_ASSET_HAS_NO_SCENE,
            "GLB has no scene to display.",
            details
        )


class AssetDecodeErrorException(ViewerException):
    """Raised when an asset cannot be streamed or decoded."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details["reason"] = reason
        super().__init__(
            ErrorCode.VIEWER_ASSET_DECODE_ERROR,
            f"Error loading GLB into viewer: {reason}",
            merged_details
        )


class AssetNotInstalledException(ViewerException):
    """Raised when no asset reference is installed or a reference was revoked."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.VIEWER_ASSET_NOT_INSTALLED,
            "No GLB available for download.",
            details,
            status_code=404
        )


# System Exceptions

class SystemException(AppException):
    """Base class for system-level exceptions."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(error_code, message, details, status_code=500)


class InternalErrorException(SystemException):
    """Raised for unexpected internal errors."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.SYS_INTERNAL_ERROR,
            "An internal error occurred. Please try again later",
            details
        )


class ConfigurationErrorException(SystemException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_key: str, reason: str, details: Optional[Dict[str, Any]] = None):
        merged_details = details or {}
        merged_details.update({
            "config_key": config_key,
            "reason": reason
        })
        super().__init__(
            ErrorCode.SYS_CONFIGURATION_ERROR,
            f"Configuration error for '{config_key}': {reason}",
            merged_details
        )
