"""
publishing/ — Todo lo que toca el repositorio de GitHub.

Módulos:
- github_client.py → Requests autenticados a la API REST de GitHub
- github_app.py    → Tokens de instalación de GitHub App (alternativa a GH_TOKEN)
- placement.py     → Paths, nombres de branch y URLs (funciones puras)
- workflow.py      → Publicación directa o vía pull request
- catalog.py       → Listado y borrado de assets publicados
- health.py        → Ping de credencial y permisos
"""
