from expresso.cli import run

run()
