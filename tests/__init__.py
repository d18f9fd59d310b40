"""invoice-lookup test suite.

Unit tests live in tests/unit, one module per library module plus the CLI.
HTTP traffic is served by httpx.MockTransport (see conftest.py); no test
touches the network or sleeps for real.
"""
