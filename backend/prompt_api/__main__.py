from prompt_api.main import run

run()
