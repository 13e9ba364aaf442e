"""
Tokenization Gateway Service package.

The gateway acts for a single home organization and fronts two upstream
services, the registry (warehouse) and the token driver:
- Admission: nothing but /connect is served until a home org is set
- Proxying: unit and project listings scoped to the home org
- Tokenization: token creation on the driver, confirmed and linked back
  into the registry by a detached workflow
- Detokenization: unlocking uploaded bundles and parsing them on the driver

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.identity: Runtime identity store and its YAML persistence.
- app.adapters: HTTP clients for the registry and driver services.
- app.domain: Admission gate, proxy, handshake and workflows.
"""
