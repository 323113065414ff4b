from enum import Enum


class ErrorCode(str, Enum):
    INSTALLER_INITIALIZATION_ERROR = "slack_oauth_installer_initialization_error"
    AUTHORIZATION_ERROR = "slack_oauth_installer_authorization_error"
    GENERATE_INSTALL_URL_ERROR = "slack_oauth_generate_url_error"
    MISSING_STATE_ERROR = "slack_oauth_missing_state"
    INVALID_STATE_ERROR = "slack_oauth_invalid_state"
    MISSING_CODE_ERROR = "slack_oauth_missing_code"
    UNKNOWN_ERROR = "slack_oauth_unknown_error"


class InstallerError(Exception):
    """Base class for every error raised by the install flow"""
    code = ErrorCode.UNKNOWN_ERROR


class InstallerInitializationError(InstallerError):
    code = ErrorCode.INSTALLER_INITIALIZATION_ERROR


class GenerateInstallUrlError(InstallerError):
    code = ErrorCode.GENERATE_INSTALL_URL_ERROR


class AuthorizationError(InstallerError):
    code = ErrorCode.AUTHORIZATION_ERROR


class MissingCodeError(InstallerError):
    code = ErrorCode.MISSING_CODE_ERROR


class MissingStateError(InstallerError):
    code = ErrorCode.MISSING_STATE_ERROR


class StateVerificationError(InstallerError):
    """The state param could not be tied back to the request that started the install"""
    code = ErrorCode.INVALID_STATE_ERROR


class CookieNotFoundError(StateVerificationError):
    """The browser did not send back the state cookie set on the install path"""
