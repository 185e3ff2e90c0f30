"""
notary — code signing and notarization for macOS software.

Signs bundles with codesign, submits them to Apple's notary service via
notarytool, polls for the verdict, staples tickets and turns rejection
logs into structured issues. Certificates and identities are validated
and filtered before use.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
