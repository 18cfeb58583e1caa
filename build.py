#!/usr/bin/env python3
from sitepub.cli import main

if __name__ == "__main__":
    main()
