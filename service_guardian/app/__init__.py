"""
Route Guardian service package.

Decides whether a caller, identified by a set of subject tokens, may use an
HTTP verb on a request path. It provides:

- app.rules: Rule model, path compiler, builder, decision engine and loader.
- app.subjects: Subject resolvers for JWT bearer tokens and API keys.
- app.middleware: FastAPI/Starlette middleware guarding a path prefix.
- app.main: Decision service exposing checks, rule listing and reload.

Guidelines:
- Rule sets are immutable snapshots; publish new ones, never mutate.
- Decisions never raise; unknown input falls back to the default policy.
"""
