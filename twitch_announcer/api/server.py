from fastapi import FastAPI
from twitch_announcer.api.routes import settings as settings_routes
from twitch_announcer.api.routes import stream as stream_routes
from twitch_announcer.api.routes import system as system_routes

app = FastAPI(title="Twitch Announcer API", version="0.3.0")

app.include_router(settings_routes.router)
app.include_router(stream_routes.router)
app.include_router(system_routes.router)

# Service injection proxy

def set_service(service):
    stream_routes.set_service(service)
    settings_routes.set_service(service)
