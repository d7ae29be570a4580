"""
Setup file.
"""

from setuptools import setup

KEYWORDS = "subprocess shell process pool batch executor"


if __name__ == "__main__":
    setup(
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        include_package_data=True)
