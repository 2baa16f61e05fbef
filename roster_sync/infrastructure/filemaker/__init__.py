"""
Cliente asincrono de la FileMaker Data API.

- token_manager: token de sesion cacheado con ventana deslizante
- params: builders de parametros por operacion (allow-lists explicitas)
- client: operaciones de la Data API (find, CRUD, metadata, upload)
- types: envelopes tipados y clausulas de query
"""
