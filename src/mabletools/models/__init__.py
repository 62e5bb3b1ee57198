"""Interface to the fitted models stored in a mable."""

from mabletools.models.protocol import ModelHandle, forecast, is_model_handle, residuals

__all__ = ["ModelHandle", "forecast", "is_model_handle", "residuals"]
