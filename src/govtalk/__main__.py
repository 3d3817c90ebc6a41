"""
Entry point for `python -m govtalk`.

Usage:
    python -m govtalk send body.xml --class HMRC-VAT-DEC --profile hmrc-dev
    python -m govtalk poll <correlation-id> --class HMRC-VAT-DEC
    python -m govtalk setup
"""

from .ui.cli import main

main()
