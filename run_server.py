#!/usr/bin/env python3
"""
CertChain Server Launcher
"""

import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from cli import main

if __name__ == '__main__':
    if len(sys.argv) == 1:
        sys.argv.append('serve')
    main()
