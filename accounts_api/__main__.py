from accounts_api.main import run

run()
