from uptime_tracker.main import main

main()
