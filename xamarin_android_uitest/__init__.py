"""Xamarin Android UITest step: build an app and its UITest project, then run the UI tests."""

__version__ = "1.0.0"
