from flakyapp.main import run

run()
