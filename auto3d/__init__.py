"""
Auto3D — Publicador de modelos 3D e imágenes de autopartes en GitHub.

Este paquete contiene:
- publishing/  → Cliente de GitHub, ubicación de assets, workflow
                 de publicación (commit directo o PR), catálogo y ping
- access.py    → Allow-list de logins
- config.py    → config.yaml + .env
- api.py       → Servidor FastAPI
- cli.py       → Comandos de terminal

Uso:
    python -m auto3d serve
    python -m auto3d upload bumper.glb --category model --brand BMW --model E46
    python -m auto3d ping
"""

__version__ = "1.0.0"
