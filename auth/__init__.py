"""auth/ -- Authentication and token lifecycle package for Elewa.

  passwords.py     -- bcrypt digest / verify
  tokens.py        -- access + refresh token issue / validate
  store.py         -- user repository (SQLAlchemy Core)
  service.py       -- register, login, refresh, profile orchestration
  dependencies.py  -- request gating for protected routes

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
typing). api/ imports from auth/, not the other way around.
"""
