"""School portal - classes, announcements, assignments, events and media.

Layers:
    core            settings, logging, errors, authentication, access policy
    domain          pydantic models shared by the API and the client
    infrastructure  document store and upload storage
    services        business operations over the store
    api             FastAPI routers
    client          session manager, data gateway and view controller
"""
