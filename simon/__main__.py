"""
Allow running the exporter as a module: python -m simon
"""
from simon.cli import main


if __name__ == '__main__':
    main()
