"""
__main__.py — Permite ejecutar Auto3D como módulo.

    python -m auto3d upload preview.jpg --category image --brand Kia --model Carnival
"""

from auto3d.cli import main

if __name__ == "__main__":
    main()
