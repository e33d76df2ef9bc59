"""
Shared pytest configuration.
"""


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: runs real processes against a stand-in Nikto script"
    )
